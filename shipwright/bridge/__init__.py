"""Bridges to external collaborators.

Modules
-------
secret_store
    ``SecretStore`` protocol plus environment and in-memory backends for
    signing keys and repository push credentials.
release_host
    ``ReleaseHost`` protocol plus GitHub Releases and local-directory
    hosts.
"""
