"""
Content proxy service package.

The proxy fronts the remote file store for the public site, providing:
- Credential caching: encrypted bearer token reuse across requests
- Result caching: file-backed TTL caches per listing and resource
- Batch enrichment: concurrent thumbnail/excerpt resolution
- Conditional responses: ETag / Last-Modified validation

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.auth: Identity provider client and credential cache.
- app.adapters: HTTP client for the remote store.
- app.caching: File store, result cache and site locator cache.
- app.enrichment: Two-round batch enricher.
- app.domain: Records, year helpers, excerpts and HTTP validation.
- app.gallery / app.news: Domain services.
"""
