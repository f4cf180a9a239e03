"""Building blocks of a quiz-taking session."""
