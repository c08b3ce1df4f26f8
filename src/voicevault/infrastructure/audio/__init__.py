"""Audio decode/output backends and spectrum analysis."""
