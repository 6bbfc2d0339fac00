"""Client-side services: navigation, safe moves, browsing and sharing."""
