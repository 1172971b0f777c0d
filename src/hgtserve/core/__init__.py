"""Configuration and logging shared by hgtserve components."""
