"""HTTP collaborators: request encoding, transport and connectivity probe."""
