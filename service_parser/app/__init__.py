"""
Parser Service package for the EOG Parser API.

The service accepts an uploaded revenue-check PDF and delegates table
extraction to an external agent runtime, returning a CSV download:
- Rate limiting: fixed window per client identity
- Uploads/downloads: staged on local disk with deferred cleanup
- Extraction: WebSocket gateway first, one-shot CLI as fallback

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.config: Environment-driven settings.
- app.ratelimit: Fixed-window limiter.
- app.uploads / app.downloads: File staging and retrieval.
- app.backends: Extraction strategies and the dispatcher.
- app.gateway: Agent process supervision and state bootstrap.
"""
