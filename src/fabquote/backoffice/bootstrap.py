from __future__ import annotations

"""
Back office bootstrap helpers.

SQLAlchemy only creates tables for models that have been imported (registered) in the
metadata. `init_db()` and the Alembic env call this so every table is known.
"""


def import_all_models() -> None:
    from fabquote.backoffice.models import attachment as _attachment  # noqa: F401
    from fabquote.backoffice.models import cad_version as _cad_version  # noqa: F401
    from fabquote.backoffice.models import event_log as _event_log  # noqa: F401
    from fabquote.backoffice.models import note as _note  # noqa: F401
    from fabquote.backoffice.models import order as _order  # noqa: F401
    from fabquote.backoffice.models import quote as _quote  # noqa: F401
    from fabquote.backoffice.models import runtime_setting as _runtime_setting  # noqa: F401
