"""
geosync package.

Responsible for:
- Reading business locations from the Locations spreadsheet.
- Backfilling missing coordinates through the Google Geocoding API.
- Writing results back without blowing through Sheets / Maps quotas.
"""

__version__ = "1.0.0"
