"""HTTP surface for Autodeploy."""
