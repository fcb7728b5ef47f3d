"""
penny_kernel -- money, calendar and persistence core of the penny tracker.

Layers (imports point downward only)::

    services/ selectors/
        repositories/
            models/  domain/
                db/  exceptions  logging_config
"""
