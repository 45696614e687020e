"""Unit tests - engine, services and utilities on in-memory collaborators"""
