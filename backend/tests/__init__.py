"""
pytest test suite for the Radeo Storefront API.

Test categories:
- Unit tests: Service layer against in-memory SQLite, provider clients mocked
- API tests: Routers through the ASGI app with httpx
- Edge case tests: Idempotent webhooks, illegal transitions, stock limits
"""
