"""Terminal driver for studysync."""
