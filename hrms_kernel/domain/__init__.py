"""Pure domain types for the HRMS kernel (zero I/O)."""
