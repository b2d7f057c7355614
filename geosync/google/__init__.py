from .client import GeocodeCandidate, GeocodeResponse, GoogleApiError, GoogleGeocoder

__all__ = ["GeocodeCandidate", "GeocodeResponse", "GoogleApiError", "GoogleGeocoder"]
