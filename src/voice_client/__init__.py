"""Console client for realtime voice sessions."""
