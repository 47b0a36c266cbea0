"""Task management backend with task sharing, groups and reminders."""
