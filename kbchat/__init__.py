"""Knowledge-base chatbot backend."""
