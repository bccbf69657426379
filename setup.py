from setuptools import find_packages, setup

package_name = "icp_core"

setup(
    name=package_name,
    version="0.1.0",
    packages=find_packages(exclude=["test", "test.*"]),
    package_data={
        package_name: ["config/*.yaml"],
    },
    install_requires=["setuptools", "numpy", "jax", "pydantic>=2", "pyyaml"],
    python_requires=">=3.9",
    zip_safe=True,
    description="Rigid ICP transformation estimators and tensor geometry attribute storage (JAX)",
    license="Apache-2.0",
    tests_require=["pytest", "scipy"],
    extras_require={
        "test": ["pytest", "scipy"],
    },
)
