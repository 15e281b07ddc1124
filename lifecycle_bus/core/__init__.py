"""Bus, engine base classes and demo engines."""
