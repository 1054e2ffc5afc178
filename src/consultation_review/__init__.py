"""Clinical-order pricing, justification and compliance review for consultations."""
