from __future__ import annotations


def get_sidebar_navigation(request):
    """
    Admin/Unfold: retorna `UNFOLD['SIDEBAR']['navigation']`.

    `group['items']` precisa ser lista (não callable).
    """
    return [
        {
            "title": "Operação",
            "icon": "hub",
            "items": [
                {
                    "title": "Pedidos",
                    "icon": "receipt_long",
                    # Default operacional: cair em pedidos novos
                    "link": "/admin/retaguarda/order/?status__exact=pedido_criado",
                },
                {
                    "title": "Em separação",
                    "icon": "qr_code_scanner",
                    "link": "/admin/retaguarda/order/?status__exact=em_separacao",
                },
                {
                    "title": "Etiquetas",
                    "icon": "label",
                    "link": "/admin/retaguarda/inventorylabel/?status__exact=available",
                },
            ],
        },
        {
            "title": "Estoque",
            "icon": "inventory_2",
            "items": [
                {
                    "title": "Movimentações",
                    "icon": "swap_vert",
                    "link": "/admin/retaguarda/stockmovement/",
                },
                {
                    "title": "Transferências",
                    "icon": "local_shipping",
                    "link": "/admin/retaguarda/stockmovement/?movement_type__exact=transferencia",
                },
                {
                    "title": "Perdas",
                    "icon": "delete_sweep",
                    "link": "/admin/retaguarda/loss/",
                },
                {
                    "title": "Inventários",
                    "icon": "fact_check",
                    "link": "/admin/retaguarda/inventorycount/",
                },
                {
                    "title": "Produtividade",
                    "icon": "timer",
                    "link": "/admin/retaguarda/productionrecord/",
                },
            ],
        },
        {
            "title": "Configuração",
            "icon": "settings",
            "items": [
                {
                    "title": "Estabelecimentos",
                    "icon": "store",
                    "link": "/admin/retaguarda/establishment/",
                },
                {
                    "title": "Vínculos",
                    "icon": "badge",
                    "link": "/admin/retaguarda/membership/",
                },
                {
                    "title": "Produtos",
                    "icon": "category",
                    "link": "/admin/retaguarda/product/",
                },
            ],
        },
    ]
