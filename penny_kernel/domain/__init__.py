"""Pure domain: enums, DTOs, recurrence arithmetic, clock and deadline.  ZERO I/O."""
