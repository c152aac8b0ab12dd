"""Sharded batch reader, its processors and the reducers for their outputs."""
