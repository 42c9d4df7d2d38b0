"""Django project package for the attendance verification service."""
