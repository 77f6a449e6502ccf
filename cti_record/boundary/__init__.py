"""Boundary adapters: database metadata, engine and transaction handling."""
