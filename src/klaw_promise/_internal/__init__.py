"""Internal helpers shared by the promise combinators."""
