"""gigaset-phonebook: a phonebook server for Gigaset base stations.

Stores contacts in one JSON file, serves them to a web UI over a JSON API and
to the base station as LocalDirectory XML, and imports vCard / JSON files with
duplicate detection and a choice of merge strategies.
"""
__version__ = "1.2.0"
