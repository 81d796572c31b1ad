"""Service layer: the approval workflow and its collaborators."""
