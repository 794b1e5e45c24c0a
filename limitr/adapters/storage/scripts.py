"""Lua scripts evaluated server-side by the Redis and Upstash adapters."""

# Returns {count, ttl_ms}. The TTL is only set when the key has none, so an
# in-flight window is never extended.
INCREMENT_SCRIPT = """
local count = redis.call("INCR", KEYS[1])
local ttl = redis.call("PTTL", KEYS[1])
if ttl < 0 then
  redis.call("PEXPIRE", KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

# Decrements only an existing, positive counter.
DECREMENT_SCRIPT = """
local value = redis.call("GET", KEYS[1])
if not value then
  return nil
end
local count = tonumber(value)
if count and count > 0 then
  return redis.call("DECR", KEYS[1])
end
return count
"""
