"""Gradle dependency resolution and SQLite index storage for Java and Groovy projects."""

__version__ = "0.1.0"