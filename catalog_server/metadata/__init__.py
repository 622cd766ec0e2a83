"""Metadata vocabulary, schema cache and actions backing admin queries."""
