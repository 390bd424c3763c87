[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sfusignal"
version = "0.1.0"
description = "RTP capability negotiation, parameter validation and remote SDP generation for SFU clients"
requires-python = ">=3.10"
dependencies = []
keywords = ["webrtc", "sfu", "sdp", "rtp", "ortc", "signaling", "simulcast"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Conferencing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sfusignal"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
