"""Domain services: round lifecycle, progression sync and read queries.

These modules hold the business rules and transaction boundaries. HTTP
blueprints only authenticate, parse and render.
"""
