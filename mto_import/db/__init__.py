"""PostgreSQL access: batched inserts and the takeoff store."""
