from __future__ import annotations


class TripFinderError(Exception):
    """Base class for all errors raised by bike_trip_finder."""


class InvalidInput(TripFinderError, ValueError):
    """Search criteria rejected before any catalog lookup."""


class SearchFailed(TripFinderError):
    """The journey catalog failed; no partial result is returned."""


# Name used for the data-source side of the same failure.
DataSourceFailure = SearchFailed


class DataIntegrityError(SearchFailed):
    """A catalog row breaks an invariant the search relies on."""


class CatalogLoadError(TripFinderError):
    """A catalog document could not be loaded into the database."""
