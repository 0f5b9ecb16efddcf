from .serial import *
