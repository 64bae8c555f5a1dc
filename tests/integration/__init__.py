"""
tests/integration/
~~~~~~~~~~~~~~~~~~
Integration tests that talk to real location providers.

These tests are SKIPPED by default. To run them:

    INTEGRATION_TESTS=1 pytest tests/integration/ -v

Requirements:
- IP lookup: outbound network access (ip-api.com allows 45 req/min)
- gpsd: a daemon on GPSD_HOST:GPSD_PORT with a receiver that has a fix
"""
