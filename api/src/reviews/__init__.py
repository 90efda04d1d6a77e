"""Product reviews: durable documents in Cassandra, likes and pins in Redis."""
