"""email-service: consumes trade lifecycle events and emails participants."""
