"""python -m hero_wheel"""
from hero_wheel.main import run

run()
