"""HTTP primitives: Request, Response, Headers, QueryParams, forms."""
