from setuptools import setup, find_packages


def scm_version():
    def local_scheme(version):
        if version.tag and not version.distance:
            return version.format_with("")
        else:
            return version.format_choice("+{node}", "+{node}.dirty")
    return {
        "relative_to": __file__,
        "version_scheme": "guess-next-dev",
        "local_scheme": local_scheme,
        "fallback_version": "0.1.dev0",
    }


setup(
    name="mmuart",
    use_scm_version=scm_version(),
    description="A cycle-accurate memory-mapped UART peripheral model with Amaranth",
    license="BSD",
    python_requires="~=3.8",
    setup_requires=["setuptools_scm"],
    install_requires=[
        "amaranth>=0.5",
    ],
    packages=find_packages(),
)
