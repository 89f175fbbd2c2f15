from bitcoin_tui import catalog
from bitcoin_tui.catalog import Category


class TestCatalog:
    def test_methods_sorted_and_unique(self):
        names = [m.name for m in catalog.methods()]
        assert names == sorted(names)
        assert len(names) == len(set(names))

    def test_categories_partition_the_catalog(self):
        general = catalog.general_methods()
        wallet = catalog.wallet_methods()
        assert len(general) + len(wallet) == len(catalog.methods())
        assert all(m.category is Category.GENERAL for m in general)
        assert all(m.is_wallet for m in wallet)

    def test_wallet_management_is_general(self):
        for name in ("listwallets", "createwallet", "loadwallet", "unloadwallet"):
            method = catalog.find(name)
            assert method is not None
            assert not method.is_wallet

    def test_private_key_methods_absent(self):
        assert catalog.find("dumpprivkey") is None
        assert catalog.find("importprivkey") is None

    def test_find_unknown(self):
        assert catalog.find("nosuchmethod") is None

    def test_optional_before_required_has_default(self):
        # Positional JSON-RPC: the only way to reach a later required param is the default.
        for method in catalog.methods():
            last_required = max((i for i, p in enumerate(method.params) if p.required), default=-1)
            if last_required < 0:
                continue
            for param in method.params[:last_required]:
                assert param.required or param.default is not None, (method.name, param.name)

    def test_signature(self):
        assert catalog.find("getblock").signature() == "getblock blockhash [verbosity=1]"
        assert catalog.find("getblockchaininfo").signature() == "getblockchaininfo"
