"""Hero Wheel: spin a wheel of superheroes and composite a photo into the winner."""
__version__ = "0.1.0"
