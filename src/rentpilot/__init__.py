"""RentPilot: tiered rental pricing for rental stores."""
