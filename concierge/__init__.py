"""Concierge: chat sessions between visitors and AI assistants.

Architecture Overview
=====================

A visitor chats either with the **global assistant** of the directory or with
the assistant of **one business**.  Every conversation is a session stored in
the partition of its scope, and every AI reply carries token usage and cost
that roll up into the session totals.

Request flow for one message::

    persist user message
      → resolve agent config   (owner config → record config → default)
      → business context       (directory record on top of cached provider data)
      → completion             (Anthropic via LangChain, one call, no tools)
      → cost                   (pricing table, default entry for unknown models)
      → persist reply + totals (one transaction, SQL-side increments)

Key Design Decisions
--------------------
- **Persistence**: SQLAlchemy over SQLite by default.  The two atomic units
  (session + welcome message, message + counter increments) are single
  transactions.
- **Business details**: cache-aside in front of Google Places with a 30-day
  TTL.  Stale entries are misses; cache writes are best-effort.
- **Resilience**: the Places client retries transport errors and
  5xx with exponential backoff.  A failed completion is answered with a
  local apology instead of an error.
- **Access control**: one policy function decides admin / verified-owner
  rights for dashboards and config endpoints.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``concierge/config.py``: Centralized configuration from environment variables
- ``concierge/models.py``: Pydantic domain models
- ``concierge/errors.py``: Error taxonomy
- ``concierge/prompts.py``: Default system prompts and fixed texts
- ``concierge/policy.py``: Access policy
- ``concierge/orchestrator.py``: Session use cases
- ``concierge/server.py``: FastAPI application
- ``concierge/main.py``: CLI chat interface
- ``concierge/services/``: Stores, cache, Places and Anthropic clients, costs, metrics
- ``concierge/api/``: FastAPI routes and Pydantic schemas
"""
