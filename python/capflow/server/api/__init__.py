"""HTTP API for capflow."""
