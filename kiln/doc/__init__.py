"""Namespace for documentation tooling; it holds no modules."""