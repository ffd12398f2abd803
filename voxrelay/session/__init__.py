"""Server-side session state and the components that drive it."""
