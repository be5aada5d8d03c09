"""Clients for the upstream recommender and streaming-availability services."""
