"""Command line tool for reconciling RedisBrokers from local manifests."""
