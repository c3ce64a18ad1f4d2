"""Schema package for audit contracts."""
