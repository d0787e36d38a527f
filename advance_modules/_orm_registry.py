"""
Module ORM Registry (``advance_modules._orm_registry``).

Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  Called by ``advance_kernel.db.engine.create_tables``.
"""


def import_all_orm_models() -> None:
    """Import every ``advance_modules.*.orm`` module to register ORM models.

    This function is idempotent -- repeated calls are harmless.
    """
    import advance_modules.advances.orm  # noqa: F401
