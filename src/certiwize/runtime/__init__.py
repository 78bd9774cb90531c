"""Runtime: dispatcher, static asset fallback, and the outer facade."""
