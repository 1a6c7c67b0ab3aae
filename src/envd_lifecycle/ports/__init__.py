"""Ports - interfaces between the lifecycle core and its collaborators."""
