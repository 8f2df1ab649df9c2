"""Data-access backend for locations, access points, profiles and session logs."""
