"""
Shared utilities for the EOG Parser service.

Common building blocks consumed by the parser service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (middleware, health, metrics)
- test_helpers: Fakes for the agent gateway and CLI used in tests

Do not import from service_parser into shared/.
"""
