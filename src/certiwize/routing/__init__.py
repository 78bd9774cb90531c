"""Routing: path pattern compiler, matcher, and the static route table."""
