"""Web control surface for the matchmaking simulator."""
