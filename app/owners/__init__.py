"""Owners packages: notification mail composition.

Builds plain-text notification mails describing the creation, change or
deletion of an owners package and fans them out to the package owners.
"""
