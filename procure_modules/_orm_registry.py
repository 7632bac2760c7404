"""
Module ORM Registry (``procure_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``procure_kernel.db.engine.create_tables``.

Usage
-----
Entrypoints and ``tests/conftest.py`` call ``create_tables()``, which calls
``import_all_orm_models()`` first.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``procure_modules.*.orm`` module.

    This function is idempotent -- repeated calls are harmless.
    """
    # Kernel tables first (journal, sequences, activity log)
    import procure_kernel.models  # noqa: F401
    import procure_kernel.services.activity_log  # noqa: F401
    import procure_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import procure_modules.billing.orm  # noqa: F401
    import procure_modules.inventory.orm  # noqa: F401
    import procure_modules.procurement.orm  # noqa: F401
    # fmt: on
