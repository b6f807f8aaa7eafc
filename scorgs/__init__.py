"""
SC Orgs — Organization directory & HR platform for Star Citizen
================================================================
Lets Star Citizen organizations register (proving ownership through a
code on their RSI page), manage members with ranked roles, run events
mirrored to Discord, and handle recruitment, onboarding, reviews, skills
and policy documents.

Package layout::

    scorgs/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Permission names, default roles, limits
    ├── errors.py          # Domain exceptions → HTTP status
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── clients/
    │   ├── rsi.py         # RSI website scraper (httpx + bs4)
    │   └── discord_api.py # Discord REST client (scheduled events)
    ├── services/          # Business rules, one module per area
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/
    │       └── integration.py  # /scorgs connect|status|disconnect
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Current user, RSI account verification
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
