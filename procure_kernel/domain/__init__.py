"""Pure domain helpers shared by engines, modules and services."""
