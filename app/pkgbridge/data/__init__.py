"""Bundled data files for pkgbridge."""
