"""PopFix FastAPI application package.

The ASGI application lives in :mod:`app.main`; import it from there (or from
the ``popfix`` package) so configuration is only loaded on demand.
"""
