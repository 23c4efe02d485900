"""Payment sessions against the card gateway and verification of its callbacks."""
