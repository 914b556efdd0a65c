"""HTTP API package for the Redeem Guard service."""
