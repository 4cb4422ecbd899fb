"""Domain Layer: errors, value objects, events and the interfaces (ports)
that infrastructure adapters implement.
"""
