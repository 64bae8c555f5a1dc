"""nearby_places – resolve the user's location and rank what is around it."""
