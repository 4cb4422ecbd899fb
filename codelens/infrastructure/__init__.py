"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (the OpenAI API, config files,
the terminal) by implementing the interfaces defined in the domain layer.
Also includes the resilience primitives and the response cache.
"""
