"""Services orchestrating repositories, GitHub and change tracking."""
