"""
Pytest suite for the Storefront Order Service backend.

Test categories:
- Unit tests: pricing, validation, templates, tokens (no I/O)
- API tests: FastAPI app over ASGITransport with an in-memory order store
- Integration tests: workflow and storage backends on in-memory SQLite
"""
