"""Domain layer for ledgersync application.

Services are imported from their modules (``ledgersync.domain.csv_import``
and so on); the database layer imports ``ledgersync.domain.entities``, so
this package stays free of service imports.
"""
